"""Generation services: routing, admission control, pipeline and safety checks."""
