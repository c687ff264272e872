"""Document submission and review API."""
