"""argoqc CLI — command-line interface."""
