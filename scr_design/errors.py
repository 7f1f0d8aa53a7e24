"""Exception types raised by SCR-Design.

Rejected datasets are NOT errors: they are ordinary control flow inside
the replication driver and only surface as the ``retries`` column.
"""


class ConfigurationError(ValueError):
    """Invalid run inputs. Raised before the first trial; never retried."""


class FitError(RuntimeError):
    """The likelihood optimiser did not converge or returned a non-finite optimum."""

    def __init__(self, message: str, trial: int = -1):
        super().__init__(message)
        self.trial = trial


class SearchExhaustedError(RuntimeError):
    """The trial ceiling was reached before ``nsim`` replicates were accepted."""

    def __init__(self, trials: int, accepted: int, nsim: int):
        super().__init__(
            f"Search exhausted after {trials} trials: "
            f"only {accepted} of {nsim} replicates accepted"
        )
        self.trials = trials
        self.accepted = accepted
        self.nsim = nsim
