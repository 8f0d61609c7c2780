"""External context providers: weather, local events, sports, holidays and the seasonal fallback."""
