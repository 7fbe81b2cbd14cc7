"""Recording UserFeedback for testing."""

from branchstack.core.user_feedback import UserFeedback


class FakeUserFeedback(UserFeedback):
    def __init__(self) -> None:
        self._messages: list[tuple[str, str]] = []

    @property
    def messages(self) -> list[tuple[str, str]]:
        """(level, message) pairs in emission order."""
        return self._messages

    def info(self, message: str) -> None:
        self._messages.append(("info", message))

    def success(self, message: str) -> None:
        self._messages.append(("success", message))

    def error(self, message: str) -> None:
        self._messages.append(("error", message))
