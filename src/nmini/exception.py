
class NminiException(Exception):
    pass


class ConfigError(NminiException):
    # unhappy about something we receive from the command line or stdin
    pass


class SessionStateError(NminiException):

    @classmethod
    def not_ready(cls, state, operation: str):
        return SessionStateError(f'session is {state.name.lower()}, {operation} needs it ready')


class RelayException(NminiException):
    pass


class QueryClosedException(RelayException):
    pass


class PublishException(RelayException):
    pass


class GiftWrapException(NminiException):
    pass


class ArchiveException(NminiException):
    pass
