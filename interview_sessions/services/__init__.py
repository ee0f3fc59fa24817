"""Services composing the access gate, repositories and text generation."""
