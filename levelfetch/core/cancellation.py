"""
Cooperative cancellation for running tasks.
"""


class CancellationToken:
    """
    A set-once flag shared between the party requesting cancellation and the
    running task, which checks it between levels.
    """

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
