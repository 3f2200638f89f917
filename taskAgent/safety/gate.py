"""Safety Gate: rule-table evaluation of concrete file, shell and network actions.

Every local tool converts its call into a ``SafetyAction`` and asks the gate
before touching the OS. The gate is stateless apart from its rule table and is
fail-closed: an exception raised while evaluating a rule denies the action.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import yaml

from taskAgent.config.project_root import default_config_file
from taskAgent.utils.error_handler import ConfigurationError
from taskAgent.utils.logging_utils import log_safety_verdict

LOGGER = logging.getLogger(__name__)

FILE_ACTIONS = {"file_read", "file_write", "file_delete", "file_move"}
SHELL_ACTION = "shell_execute"
NETWORK_ACTION = "network_request"

REDACTED = "[REDACTED]"
MB = 1024 * 1024


@dataclass
class SafetyAction:
    """One proposed side effect."""

    type: str
    path: Optional[str] = None
    destination: Optional[str] = None
    size_bytes: Optional[int] = None
    command: Optional[str] = None
    args: List[str] = field(default_factory=list)
    timeout_seconds: Optional[float] = None
    url: Optional[str] = None
    request_size_bytes: Optional[int] = None


@dataclass(frozen=True)
class SafetyVerdict:
    """Outcome of evaluating an action; always produced."""

    allowed: bool
    reason: str
    rule: Optional[str] = None
    category: Optional[str] = None


@dataclass
class PatternRule:
    pattern: str
    reason: Optional[str] = None


@dataclass
class FileSystemRules:
    blocked_paths: List[str] = field(default_factory=list)
    user_blocked_paths: List[str] = field(default_factory=list)
    blocked_extensions: List[str] = field(default_factory=list)
    blocked_operations: List[PatternRule] = field(default_factory=list)
    max_file_size_mb: float = 100


@dataclass
class ShellRules:
    allow_shell: bool = True
    blocked_commands: List[str] = field(default_factory=list)
    blocked_patterns: List[PatternRule] = field(default_factory=list)
    max_execution_time_seconds: float = 300


@dataclass
class NetworkRules:
    allow_outbound: bool = True
    blocked_domains: List[str] = field(default_factory=list)
    max_request_size_mb: float = 50


@dataclass
class PrivacyRules:
    never_log: List[str] = field(default_factory=list)
    never_include_in_memory: bool = True
    redaction_pattern: Optional[str] = None


@dataclass
class SafetyRules:
    file_system: FileSystemRules = field(default_factory=FileSystemRules)
    shell: ShellRules = field(default_factory=ShellRules)
    network: NetworkRules = field(default_factory=NetworkRules)
    privacy: PrivacyRules = field(default_factory=PrivacyRules)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SafetyRules":
        fs = data.get("file_system") or data.get("filesystem") or {}
        shell = data.get("shell") or {}
        network = data.get("network") or {}
        privacy = data.get("privacy") or data.get("secrets") or {}
        return cls(
            file_system=FileSystemRules(
                blocked_paths=list(fs.get("blocked_paths", [])),
                user_blocked_paths=list(fs.get("user_blocked_paths", [])),
                blocked_extensions=[ext.lower() for ext in fs.get("blocked_extensions", [])],
                blocked_operations=_pattern_rules(fs.get("blocked_operations", [])),
                max_file_size_mb=fs.get("max_file_size_mb", 100),
            ),
            shell=ShellRules(
                allow_shell=shell.get("allow_shell", True),
                blocked_commands=list(shell.get("blocked_commands", [])),
                blocked_patterns=_pattern_rules(shell.get("blocked_patterns", [])),
                max_execution_time_seconds=shell.get("max_execution_time_seconds", 300),
            ),
            network=NetworkRules(
                allow_outbound=network.get("allow_outbound", True),
                blocked_domains=list(network.get("blocked_domains", [])),
                max_request_size_mb=network.get("max_request_size_mb", 50),
            ),
            privacy=PrivacyRules(
                never_log=list(privacy.get("never_log", [])),
                never_include_in_memory=privacy.get("never_include_in_memory", True),
                redaction_pattern=privacy.get("redaction_pattern"),
            ),
        )


def _pattern_rules(items: List[Any]) -> List[PatternRule]:
    rules = []
    for item in items:
        if isinstance(item, dict):
            rules.append(PatternRule(pattern=str(item["pattern"]), reason=item.get("reason")))
        else:
            rules.append(PatternRule(pattern=str(item)))
    return rules


def load_safety_rules(config_path: Optional[Path] = None) -> SafetyRules:
    """Load the rule table from YAML (defaults to the packaged safety_rules.yaml)."""
    path = Path(config_path) if config_path else default_config_file("safety_rules.yaml")
    if not path.exists():
        raise ConfigurationError(f"Safety rules not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return SafetyRules.from_dict(data)


def normalize_path(path: str) -> str:
    return path.replace("\\", "/").lower()


def glob_to_regex(pattern: str) -> re.Pattern:
    """Compile a path glob: ``**`` crosses directories, ``*`` stays within one; anchored at the start."""
    escaped = re.escape(normalize_path(pattern))
    escaped = escaped.replace(r"\*\*", ".*").replace(r"\*", "[^/]*")
    return re.compile(f"^{escaped}")


class SafetyGate:
    """Evaluates actions against a ``SafetyRules`` table."""

    def __init__(self, rules: Optional[SafetyRules] = None):
        self.rules = rules if rules is not None else SafetyRules()
        self._secret_pattern = self._compile_secret_pattern()

    @classmethod
    def from_config(cls, config_path: Optional[Path] = None) -> "SafetyGate":
        return cls(load_safety_rules(config_path))

    def reload(self, rules: SafetyRules) -> None:
        self.rules = rules
        self._secret_pattern = self._compile_secret_pattern()
        LOGGER.info("Safety rules reloaded")

    def evaluate(self, action: SafetyAction) -> SafetyVerdict:
        """Judge one action. Never raises; internal failures deny."""
        try:
            if action.type in FILE_ACTIONS:
                verdict = self._evaluate_file(action)
            elif action.type == SHELL_ACTION:
                verdict = self._evaluate_shell(action)
            elif action.type == NETWORK_ACTION:
                verdict = self._evaluate_network(action)
            else:
                verdict = SafetyVerdict(
                    allowed=False,
                    reason=f"Unknown action type: {action.type}",
                    category="unknown-action",
                )
        except Exception as e:
            LOGGER.error(f"Safety rule evaluation error (action denied): {e}")
            verdict = SafetyVerdict(
                allowed=False,
                reason=f"Rule evaluation error (fail-closed): {e}",
                category="evaluation-error",
            )
        log_safety_verdict(LOGGER, str(action.type), verdict.allowed, verdict.reason)
        return verdict

    # ---- file ------------------------------------------------------------

    def _evaluate_file(self, action: SafetyAction) -> SafetyVerdict:
        if not action.path:
            raise ValueError(f"{action.type} requires a path")
        paths = [action.path]
        if action.type == "file_move":
            if not action.destination:
                raise ValueError("file_move requires a destination")
            paths.append(action.destination)

        for path in paths:
            verdict = self._check_path(path)
            if verdict is not None:
                return verdict

        rules = self.rules.file_system
        if action.type in ("file_write", "file_move"):
            target = action.destination if action.type == "file_move" else action.path
            ext = Path(target).suffix.lower()
            if ext and ext in rules.blocked_extensions:
                return SafetyVerdict(
                    allowed=False,
                    reason=f'File extension "{ext}" is blocked by safety rule',
                    rule=f"blocked_extension: {ext}",
                    category="filesystem",
                )

        if action.type == "file_write" and action.size_bytes:
            size_mb = action.size_bytes / MB
            if size_mb > rules.max_file_size_mb:
                return SafetyVerdict(
                    allowed=False,
                    reason=f"File size ({size_mb:.1f} MB) exceeds limit ({rules.max_file_size_mb} MB)",
                    rule=f"max_file_size_mb: {rules.max_file_size_mb}",
                    category="filesystem",
                )

        return SafetyVerdict(allowed=True, reason="File action permitted", category="filesystem")

    def _check_path(self, path: str) -> Optional[SafetyVerdict]:
        rules = self.rules.file_system
        norm = normalize_path(path)
        for blocked in rules.blocked_paths:
            if glob_to_regex(blocked).match(norm):
                return SafetyVerdict(
                    allowed=False,
                    reason=f"Path is blocked by system safety rule: {blocked}",
                    rule=f"blocked_path: {blocked}",
                    category="filesystem",
                )
        for blocked in rules.user_blocked_paths:
            if glob_to_regex(blocked).match(norm):
                return SafetyVerdict(
                    allowed=False,
                    reason=f"Path is blocked by user-defined rule: {blocked}",
                    rule=f"user_blocked_path: {blocked}",
                    category="filesystem",
                )
        lowered = path.lower()
        for op in rules.blocked_operations:
            if op.pattern.lower() in lowered:
                return SafetyVerdict(
                    allowed=False,
                    reason=op.reason or f"Operation matches blocked pattern: {op.pattern}",
                    rule=f"blocked_operation: {op.pattern}",
                    category="filesystem",
                )
        return None

    # ---- shell -----------------------------------------------------------

    def _evaluate_shell(self, action: SafetyAction) -> SafetyVerdict:
        rules = self.rules.shell
        if not rules.allow_shell:
            return SafetyVerdict(
                allowed=False,
                reason="Shell execution is disabled by safety rules",
                rule="allow_shell: false",
                category="shell",
            )
        if not action.command:
            raise ValueError("shell_execute requires a command")

        command = action.command.strip().lower()
        full_command = " ".join([command, *action.args]).lower() if action.args else command

        for blocked in rules.blocked_commands:
            if blocked.lower() in full_command:
                return SafetyVerdict(
                    allowed=False,
                    reason=f'Command "{blocked}" is blocked by safety rules',
                    rule=f"blocked_command: {blocked}",
                    category="shell",
                )
        for pattern in rules.blocked_patterns:
            if pattern.pattern.lower() in full_command:
                return SafetyVerdict(
                    allowed=False,
                    reason=pattern.reason or f"Command matches blocked pattern: {pattern.pattern}",
                    rule=f"blocked_pattern: {pattern.pattern}",
                    category="shell",
                )
        if action.timeout_seconds and action.timeout_seconds > rules.max_execution_time_seconds:
            return SafetyVerdict(
                allowed=False,
                reason=(
                    f"Execution timeout ({action.timeout_seconds}s) exceeds limit "
                    f"({rules.max_execution_time_seconds}s)"
                ),
                rule=f"max_execution_time_seconds: {rules.max_execution_time_seconds}",
                category="shell",
            )
        return SafetyVerdict(allowed=True, reason="Shell action permitted", category="shell")

    # ---- network ---------------------------------------------------------

    def _evaluate_network(self, action: SafetyAction) -> SafetyVerdict:
        rules = self.rules.network
        if not rules.allow_outbound:
            return SafetyVerdict(
                allowed=False,
                reason="Outbound network requests are disabled by safety rules",
                rule="allow_outbound: false",
                category="network",
            )

        parsed = urlparse(action.url or "")
        domain = (parsed.hostname or "").lower()
        if parsed.scheme not in ("http", "https") or not domain:
            return SafetyVerdict(
                allowed=False,
                reason=f"Invalid URL: {action.url}",
                rule="url_validation",
                category="network",
            )
        for blocked in rules.blocked_domains:
            blocked = blocked.lower()
            if domain == blocked or domain.endswith(f".{blocked}"):
                return SafetyVerdict(
                    allowed=False,
                    reason=f'Domain "{domain}" is blocked by safety rules',
                    rule=f"blocked_domain: {blocked}",
                    category="network",
                )
        if action.request_size_bytes:
            size_mb = action.request_size_bytes / MB
            if size_mb > rules.max_request_size_mb:
                return SafetyVerdict(
                    allowed=False,
                    reason=f"Request size ({size_mb:.1f} MB) exceeds limit ({rules.max_request_size_mb} MB)",
                    rule=f"max_request_size_mb: {rules.max_request_size_mb}",
                    category="network",
                )
        return SafetyVerdict(allowed=True, reason="Network action permitted", category="network")

    # ---- secrets ---------------------------------------------------------

    def redact_secrets(self, text: str) -> str:
        """Mask secret values before text is logged or persisted."""
        result = text
        for keyword in self.rules.privacy.never_log:
            pattern = re.compile(
                r"(" + re.escape(keyword) + r"\s*[:=]\s*[\"']?)([^\"'\s]{4,})",
                re.IGNORECASE,
            )
            result = pattern.sub(lambda m: m.group(1) + REDACTED, result)

        if self._secret_pattern is not None:
            result = self._secret_pattern.sub(self._mask_secret_group, result)
        return result

    @staticmethod
    def _mask_secret_group(match: re.Match) -> str:
        if match.re.groups == 0 or match.group(1) is None:
            return REDACTED
        start, end = match.span(1)
        offset = match.start()
        whole = match.group(0)
        return whole[: start - offset] + REDACTED + whole[end - offset:]

    def should_store_in_memory(self, text: str) -> bool:
        """False when the text carries a never-log keyword or matches the secret pattern."""
        privacy = self.rules.privacy
        if not privacy.never_include_in_memory:
            return True
        lowered = text.lower()
        if any(keyword.lower() in lowered for keyword in privacy.never_log):
            return False
        if self._secret_pattern is not None and self._secret_pattern.search(text):
            return False
        return True

    def _compile_secret_pattern(self) -> Optional[re.Pattern]:
        pattern = self.rules.privacy.redaction_pattern
        if not pattern:
            return None
        try:
            return re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            LOGGER.warning(f"Invalid redaction pattern ignored: {e}")
            return None
