"""
Fortune module for Clawtar
Content selection for the pay-per-call flow
"""

from clawtar.fortune.selector import (
    make_seed,
    pick_fortune,
    select_fortune,
    split_fortune,
    to_seed,
)

__all__ = ["make_seed", "pick_fortune", "select_fortune", "split_fortune", "to_seed"]
