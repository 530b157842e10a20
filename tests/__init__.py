"""http-sink test suite.

- unit/: one module per library component, HTTP session replaced by the
  doubles in fakes.py
- integration/: the writer against a local HTTP server over a real socket
"""
