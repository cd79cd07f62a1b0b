"""Application services for the shipgate CLI.

Services implement release and governance use cases on top of the core layer;
they never import the CLI.
"""
