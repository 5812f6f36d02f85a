"""Platform enrichment steps layered over the baseline collectors."""
