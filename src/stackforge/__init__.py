"""stackforge - Build orchestration and incremental artifact capture for software stacks."""

__version__ = "0.1.0"
