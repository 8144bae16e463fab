"""
Services layer for the block manipulation workflow.

This package contains the remote operation clients and the workflow
controller that sequences them.
"""
