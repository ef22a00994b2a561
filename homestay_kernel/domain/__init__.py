"""Pure domain layer: value objects, the transition table and the guard."""
