"""
Tests Module: Unit and Integration Tests

Test Coverage:
    - Core types, errors and configuration
    - Key resolution and request signing
    - Streaming transfer, batch paging and the object store facade
    - boto3 transport against a stubbed client
    - CLI
"""
