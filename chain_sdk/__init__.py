"""
Chain SDK

Prompt/template chain engine: models, graph checks, planning and execution.
"""
