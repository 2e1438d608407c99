from django.core.exceptions import ImproperlyConfigured


class ConfigurationError(ImproperlyConfigured):
    """A required outbound credential or destination identifier is missing."""

    def __init__(self, missing):
        self.missing = tuple(missing)
        super().__init__(f"Missing conversions API configuration: {', '.join(self.missing)}")


class WebhookAuthenticationError(Exception):
    """Raised when a webhook fails its shared-secret or signature check."""
