# progress-engine/exceptions.py


class ProgressEngineError(Exception):
    """Base class for all progress engine errors."""


class InvalidActionEventError(ProgressEngineError):
    """An action event payload that cannot be repaired (no safe default)."""


class UnknownToolError(ProgressEngineError, KeyError):
    def __init__(self, tool_id):
        super().__init__(tool_id)
        self.tool_id = tool_id

    def __str__(self):
        return f"Unknown tool id: {self.tool_id!r}"


class UnknownMilestoneError(ProgressEngineError, KeyError):
    def __init__(self, milestone_id):
        super().__init__(milestone_id)
        self.milestone_id = milestone_id

    def __str__(self):
        return f"Unknown milestone id: {self.milestone_id!r}"


class UnknownCategoryError(ProgressEngineError, KeyError):
    def __init__(self, category):
        super().__init__(category)
        self.category = category

    def __str__(self):
        return f"Unknown competency category: {self.category!r}"


class ConcurrentModificationError(ProgressEngineError):
    """The stored customer record changed between read and write."""

    def __init__(self, customer_id: str, expected_version: int, actual_version: int):
        super().__init__(
            f"Customer {customer_id} was modified concurrently "
            f"(expected version {expected_version}, found {actual_version})"
        )
        self.customer_id = customer_id
        self.expected_version = expected_version
        self.actual_version = actual_version
