"""Per-node behaviour used by the flow compiler."""
