"""Exception hierarchy for the ethernet agent."""


class EthAgentError(Exception):
    """Base exception for all agent errors."""


class ConfigurationError(EthAgentError):
    """Agent configuration is invalid or incomplete."""


class InterfaceError(EthAgentError):
    """The managed interface could not be inspected or configured."""

    def __init__(self, message: str, interface: str | None = None):
        self.interface = interface
        super().__init__(message)


class StorageError(EthAgentError):
    """Persistence backend failed to read or write configuration."""


class DhcpError(EthAgentError):
    """The external DHCP client could not be prepared or executed."""
