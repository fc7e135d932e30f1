"""Gatekeeper: policy-gated delegation and job orchestration for coding agents."""

__version__ = "0.1.0"
