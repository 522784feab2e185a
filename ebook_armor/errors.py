class ArmorError(Exception):
    """Base class for ebook-armor errors."""


# Bookkeeping files
class LedgerIOError(ArmorError, OSError):
    """The checksum ledger or the catalog log cannot be read or written."""


# Repair sets
class RepairSetFormatError(ArmorError):
    pass


class RepairCreationError(ArmorError):
    def __init__(self, name: str, reason: str):
        super().__init__(f"cannot protect {name}: {reason}")
        self.name = name
        self.reason = reason


class RepairError(ArmorError):
    pass


# Per-book verification outcomes
class ChecksumMismatch(ArmorError):
    def __init__(self, name: str, expected: str, actual: str):
        super().__init__(f"{name}: checksum mismatch (expected {expected}, got {actual})")
        self.name = name
        self.expected = expected
        self.actual = actual


class ContainerDamaged(ArmorError):
    def __init__(self, name: str):
        super().__init__(f"{name}: zip container failed structural test")
        self.name = name

