"""Submission and settlement validation.

Human positions, AI positions and queued transactions all flow through the same
validator pipelines so rejections show up consistently in the logs.
"""
