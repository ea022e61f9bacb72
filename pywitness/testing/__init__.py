"""Testing utilities: Hypothesis strategies and small sample programs."""
