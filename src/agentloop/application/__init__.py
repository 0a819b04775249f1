"""Application layer: execution pipeline, agent facade and wiring."""
