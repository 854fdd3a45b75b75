"""
nnbuilder package
~~~~~~~~~~~~~~~~~

Engine for an interactive feed-forward network builder.
Contains the network data model, forward pass, grid sampling and scoring,
structural mutations, draft text reconciliation, the JSON codec, solution
interpolation, challenge catalogue, persistence, and the API server.
"""

__version__ = "1.0.0"
