"""Live readiness summary of a Kubernetes cluster's pods and deployments."""

__version__ = "0.1.0"
