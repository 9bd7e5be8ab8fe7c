class MatcherError(ValueError):
    """Base class for errors that abort a whole matching call."""


class MatchConfigError(MatcherError):
    """Invalid match method or malformed mask range."""


class TemplateResolutionError(MatcherError):
    """A template resolved to an empty buffer."""


class TemplateSizeError(MatcherError):
    """A template is larger than the region it is searched in."""
