"""Search and inference engines — freshening and unification, constraint
simplification, lowering to Horn clauses, solving, and the bidirectional
program explorer."""
