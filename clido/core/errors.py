class ClidoError(Exception):
    pass


class ValidationError(ClidoError):
    def __init__(self, field: str, message: str):
        self.field = field
        super().__init__(f"invalid {field}: {message}")


class CycleError(ClidoError):
    pass


class AlreadyOwnedError(ClidoError):
    pass


class NotFoundError(ClidoError):
    def __init__(self, kind: str, ref: object):
        self.kind = kind
        self.ref = ref
        super().__init__(f"No {kind} found: '{ref}'")


class PersistenceError(ClidoError):
    pass


class StateError(ClidoError):
    pass


class AmbiguousError(ClidoError):
    def __init__(self, ref: str, count: int = 0, sample: list[str] | None = None):
        self.ref = ref
        self.count = count
        self.sample = sample or []
        count_note = f" ({count})" if count else ""
        note = f": {', '.join(self.sample)}" if self.sample else ""
        super().__init__(f"ambiguous ref '{ref}' matches multiple items{count_note}{note}")
