"""Error types raised by the progress engine."""


class ProgressError(Exception):
    """Base class for all progress engine errors."""


class SaveFailed(ProgressError):
    """The progress store rejected a write."""

    def __init__(self, reason: str, underlying: BaseException | None = None):
        self.reason = reason
        self.underlying = underlying
        message = f"Failed to save progress ({reason})"
        if underlying is not None:
            message += f": {underlying}"
        super().__init__(message)


class ReadFailed(ProgressError):
    """The progress store could not answer a query."""

    def __init__(self, key: str, underlying: BaseException | None = None):
        self.key = key
        self.underlying = underlying
        message = f"Failed to load {key}"
        if underlying is not None:
            message += f": {underlying}"
        super().__init__(message)


class LessonNotFound(ProgressError):
    """No progress row exists for the lesson (complete called before any phase save)."""

    def __init__(self, lesson_id: str):
        self.lesson_id = lesson_id
        super().__init__(f"Lesson not found: {lesson_id}")


class ChildNotFound(ProgressError):
    """No child profile exists for the given id."""

    def __init__(self, child_id: str):
        self.child_id = child_id
        super().__init__(f"Child profile not found: {child_id}")


class InvalidPhase(ProgressError):
    """A phase name that cannot be stored as a resume marker."""

    def __init__(self, phase: str):
        self.phase = phase
        super().__init__(f"Invalid phase identifier: {phase!r}")
