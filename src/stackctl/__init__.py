"""stackctl - deployment orchestration for the home-automation Kubernetes stack."""

__version__ = "0.1.0"
