from enum import Enum


class EnvironmentName(Enum):
    TESTING = "test"
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"

    @property
    def is_deployed(self) -> bool:
        """Whether this environment runs against real mailboxes and reports errors to Sentry."""
        return self in (EnvironmentName.STAGING, EnvironmentName.PRODUCTION)
