"""HTTP surface for the review UI."""
