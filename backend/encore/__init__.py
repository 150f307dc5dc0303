"""Encore - music library recommendation and listening statistics backend."""
