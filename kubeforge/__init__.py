"""kubeforge -- scaffolding CLI for Kubernetes operator projects.

Generates, edits, and upgrades operator source trees from a declarative plugin
chain recorded in a single ``PROJECT`` file.
"""

__version__ = "4.7.0"
