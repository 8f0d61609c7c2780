"""Discovery, validation, pooling and prediction services."""
