"""Application layer: scan orchestration, fixup and library management."""
