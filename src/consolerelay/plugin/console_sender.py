"""
The console-sending build wrapper.

ConsoleLogSender is what a host registers in its ExtensionRegistry: it
accepts configuration form data, wraps builds so their console is relayed,
validates single form fields and runs the connection test.
"""

import logging
import os
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Mapping, Optional, Union

import requests

from ..config.store import ConfigStore
from ..config.validators import relay_config_to_dict, validate_relay_config
from ..models.config import RelayConfig
from ..models.runtime import BuildOutcome, ValidationResult
from ..orchestration.build_runner import BuildRunner
from ..orchestration.shared_state import BuildCommand
from ..relay.tester import ConnectionTester
from ..validation import ConfigInvalid, validate_field

logger = logging.getLogger(__name__)

DISPLAY_NAME = "Send console over REST"
EXTENSION_NAME = "console-log-sender"

# Form keys accepted for each configuration field, new name first.
FORM_KEYS = {
    "enabled": ("enabled", "send"),
    "endpoint_url": ("endpoint_url", "nexusUrl"),
    "username": ("username", "nexusUser"),
    "credential": ("credential", "nexusPassword"),
}
NESTED_SECTIONS = ("batching", "retry", "connection_test")

# Checkbox values browsers and hosts submit.
TRUE_STRINGS = ("true", "on", "yes", "1")
FALSE_STRINGS = ("false", "off", "no", "0", "")


class ConsoleLogSender:
    """
    Build wrapper that relays each build's console output to a REST endpoint.
    """

    display_name = DISPLAY_NAME

    def __init__(
        self,
        store: ConfigStore,
        session_factory: Optional[Callable[[], requests.Session]] = None,
        tester: Optional[ConnectionTester] = None,
    ):
        """
        Initialize the sender.

        Args:
            store: Where the relay configuration is loaded from and saved to
            session_factory: Creates the HTTP session for each build and test
            tester: Connection tester to use instead of creating one per test
        """
        self.store = store
        self.session_factory = session_factory
        self.tester = tester

    @property
    def config(self) -> RelayConfig:
        return self.store.current()

    def is_applicable(self, project_type: Any) -> bool:
        """The wrapper can be used with every kind of project."""
        return True

    def configure(self, form_data: Mapping[str, Any]) -> RelayConfig:
        """
        Validate submitted form data and persist it.

        A form that omits the credential keeps the stored one, so re-saving a
        form never wipes a password the user did not retype.

        Returns:
            The saved RelayConfig

        Raises:
            ConfigInvalid: If the data is invalid; the stored configuration
                is left unchanged
        """
        relay_data = self._relay_data(form_data)
        config = self.store.configure(relay_data)
        logger.info(f"Console relay {'enabled' if config.enabled else 'disabled'}")
        return config

    def run(
        self,
        command: str,
        cwd: Union[str, Path],
        echo: Optional[BinaryIO] = None,
        build_id: Optional[str] = None,
        env: Optional[Dict[str, str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> BuildOutcome:
        """
        Run a build command with its console relayed.

        The configuration is snapshotted when the build starts; saving a new
        one while it runs affects only later builds.

        Args:
            command: Shell command of the build
            cwd: Working directory of the build
            echo: Binary stream that keeps receiving the build's console
            build_id: Identifier of the build, sent with every batch
            env: Environment for the build; the current one when omitted
            metadata: Extra key/values sent with every batch

        Returns:
            BuildOutcome with the build's own exit code and the relay summary
        """
        config = self.store.current()
        session = self.session_factory() if self.session_factory and config.enabled else None
        runner = BuildRunner(
            BuildCommand(
                command=command,
                cwd=Path(cwd),
                env=dict(env) if env is not None else dict(os.environ),
            ),
            config,
            session=session,
            echo=echo,
            build_id=build_id,
            metadata=metadata,
            drain_timeout=config.drain_timeout,
        )
        try:
            return runner.run()
        finally:
            if session is not None:
                session.close()

    def test(self, form_data: Mapping[str, Any]) -> ValidationResult:
        """
        Test the connection described by unsaved form data.

        Returns:
            OK with a success message, or ERROR with "Client error : <message>"
        """
        try:
            config = validate_relay_config({**self._relay_data(form_data), "enabled": True})
        except ConfigInvalid as e:
            return ValidationResult.error(f"Client error : {e}")

        tester = self.tester
        owned = tester is None
        if owned:
            tester = ConnectionTester(session=self.session_factory() if self.session_factory else None)
        try:
            result = tester.test(config)
        except ConfigInvalid as e:
            return ValidationResult.error(f"Client error : {e}")
        finally:
            if owned:
                tester.close()

        if result.ok:
            return ValidationResult.ok(result.message)
        return ValidationResult.error(f"Client error : {result.message}")

    def validate(self, field: str, value: Optional[str]) -> ValidationResult:
        """Validate one form field without touching stored configuration."""
        return validate_field(field, value)

    def _relay_data(self, form_data: Mapping[str, Any]) -> Dict[str, Any]:
        """Translate form data into a `[relay]` table, keeping unsent stored values."""
        current = self.store.current()
        relay_data = relay_config_to_dict(current, stored_credential="")
        relay_data["credential"] = current.credential

        for field_name, keys in FORM_KEYS.items():
            for key in keys:
                if key in form_data:
                    relay_data[field_name] = form_data[key]
                    break

        relay_data["enabled"] = _form_bool(relay_data["enabled"])

        for section in NESTED_SECTIONS:
            if isinstance(form_data.get(section), Mapping):
                relay_data[section] = {**relay_data.get(section, {}), **form_data[section]}
        return relay_data


def _form_bool(value: Any) -> Any:
    """Turn checkbox strings into booleans; anything else is left for validation."""
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    return value
