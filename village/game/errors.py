# village/game/errors.py
from __future__ import annotations

from typing import Any, Dict, Optional


class GameError(Exception):
    """
    Base class for every failure the game rules can raise.

    `code` is a stable identifier (e.g. "InsufficientResources"), `detail` carries
    the structured explanation (deficits, caps, ids). Transport layers map these
    onto their own status signalling; nothing here knows about HTTP.
    """

    code = "GameError"
    retryable = False

    def __init__(self, message: str, **detail: Any) -> None:
        super().__init__(message)
        self.message = message
        self.detail: Dict[str, Any] = detail

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "detail": self.detail,
            "retryable": self.retryable,
        }


# ----------------------------
# Lookups
# ----------------------------

class NotFound(GameError):
    code = "NotFound"


class UnknownBuildingType(NotFound):
    code = "UnknownBuildingType"


class UnknownTroopType(NotFound):
    code = "UnknownTroopType"


# ----------------------------
# Request validation
# ----------------------------

class InvalidInput(GameError):
    code = "InvalidInput"


class InvalidPosition(InvalidInput):
    code = "InvalidPosition"


class NoUpgradeConfig(InvalidInput):
    code = "NoUpgradeConfig"


class MaxLevelExceeded(InvalidInput):
    code = "MaxLevelExceeded"


class WrongTrainingBuilding(InvalidInput):
    code = "WrongTrainingBuilding"


class TrainingInProgress(InvalidInput):
    code = "TrainingInProgress"


class SelfAttack(InvalidInput):
    code = "SelfAttack"


class SelfDonation(InvalidInput):
    code = "SelfDonation"


class TownHallProtected(InvalidInput):
    code = "TownHallProtected"


# ----------------------------
# Rule violations
# ----------------------------

class InsufficientResources(GameError):
    code = "InsufficientResources"

    def __init__(self, missing: Dict[str, Dict[str, int]], **extra: Any) -> None:
        names = ", ".join(f"{k} (short {v['missing']})" for k, v in missing.items())
        super().__init__(f"Insufficient resources: {names}", missing=missing, **extra)


class InsufficientTroops(GameError):
    code = "InsufficientTroops"


class PopulationLimitReached(GameError):
    code = "PopulationLimitReached"

    def __init__(self, current: int, required: int, cap: int) -> None:
        super().__init__(
            f"Population limit reached: {current} + {required} > {cap}",
            current=current,
            required=required,
            cap=cap,
        )


class BuildingLimitReached(GameError):
    code = "BuildingLimitReached"


class DuplicateUniqueBuilding(GameError):
    code = "DuplicateUniqueBuilding"


class TownHallLevelTooLow(GameError):
    code = "TownHallLevelTooLow"


class BuildingLevelTooLow(GameError):
    code = "BuildingLevelTooLow"


class PositionOccupied(GameError):
    code = "PositionOccupied"


class AlreadyResolved(GameError):
    code = "AlreadyResolved"


# ----------------------------
# Retryable
# ----------------------------

class Busy(GameError):
    code = "Busy"
    retryable = True


class StoreFailure(GameError):
    code = "StoreFailure"
    retryable = True

    def __init__(self, message: str, cause: Optional[BaseException] = None, **detail: Any) -> None:
        super().__init__(message, **detail)
        self.__cause__ = cause
