"""Discovery sources and the admission gate they feed."""
