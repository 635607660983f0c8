"""
Integration tests for the DMARC email worker.

These tests use mocked AWS services to run complete SES → SNS → Lambda
flows through to the reporting sink.
"""
