"""Pipeline stages — diagram, flatten, layout.

Each stage consumes the previous stage's artifact and returns its own.
The stages in order:

  diagram  — validate the JSON description and parse it into models
  flatten  — expand module instances into a flat primitive graph
  layout   — assign every primitive a clock cycle and a row

The ``runner`` module chains the three for callers that only hold raw
JSON.
"""
