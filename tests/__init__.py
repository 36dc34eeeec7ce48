"""
Test Package
============

Unit tests for chatbridge.

Test organization:
    - test_providers.py: Provider enumeration, capabilities, endpoints, catalog
    - test_request_builder.py: Conversation to provider body translation
    - test_response_parser.py: Answer extraction per provider
    - test_stream_decoder.py: Incremental stream decoding
    - test_cache.py: TTL response cache
    - test_media.py: Image preparation
    - test_client.py: Request orchestration over a fake HTTP session
    - test_models.py, test_config.py, test_logger.py, test_security.py: Supporting pieces

Run tests with:
    pytest tests/ -v
    pytest tests/ -v --cov=chatbridge --cov-report=html
"""
