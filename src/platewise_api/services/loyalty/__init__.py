"""Loyalty service exports."""

from .ledger import PointsLedger  # noqa: F401
from .redemptions import REDEMPTION_CODE_SCOPE, RedemptionStateMachine  # noqa: F401
