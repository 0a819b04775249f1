"""Execution core: registry, policy gate, dispatcher, turn engine, session state machine."""
