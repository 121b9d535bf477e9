from __future__ import annotations


class ProcessingError(Exception):
    """Base class for failures that abort a whole processing run."""


class BibParseError(ProcessingError):
    pass


class StyleNotFound(ProcessingError):
    def __init__(self, style: str) -> None:
        super().__init__(f"Citation style '{style}' not found")
        self.style = style


class LocaleNotFound(ProcessingError):
    def __init__(self, locale: str, reason: str = "") -> None:
        msg = f"Locale '{locale}' not found"
        if reason:
            msg = f"{msg}: {reason}"
        super().__init__(msg)
        self.locale = locale


class FormatError(ProcessingError):
    pass
