"""
termqtt Exception Hierarchy

Errors raised or reported by the topic explorer: unparsable payloads,
transport failures, rejected subscriptions and invalid operator input.
Only ValidationError is ever raised to callers; the others are carried
through status callbacks and summaries.
"""


class TermqttError(Exception):
    """Base exception for all termqtt errors."""
    __slots__ = ('message',)

    def __init__(self, message):
        self.message = message
        super().__init__(message)


class ParsePayloadError(TermqttError):
    """Inbound payload is not valid JSON."""
    __slots__ = ('payload',)

    def __init__(self, message, payload=None):
        super().__init__(message)
        self.payload = payload


class BrokerConnectionError(TermqttError):
    """Transport-level failure (DNS, refused, TLS, dropped link)."""
    __slots__ = ('code',)

    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code

    def detail(self):
        """Message with the transport code appended, if any."""
        if self.code is None:
            return self.message
        return '%s (%s)' % (self.message, self.code)


class SubscriptionError(TermqttError):
    """Subscribe request failed or was rejected by the broker."""
    __slots__ = ('reason_code', 'reason_text', 'code')

    def __init__(self, message, reason_code=None, reason_text=None, code=None):
        super().__init__(message)
        self.reason_code = reason_code
        self.reason_text = reason_text
        self.code = code


class ValidationError(TermqttError, ValueError):
    """Caller input rejected before reaching the broker session."""
    __slots__ = ()

    def __init__(self, message):
        super().__init__(message)
