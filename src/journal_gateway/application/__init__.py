"""Application layer — use-case facades over the provider gateways."""
