"""EZApply account lifecycle and credit disclosure backend."""
