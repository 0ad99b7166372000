"""Domain layer: model, reconciliation pipeline, verification queue and graph."""
