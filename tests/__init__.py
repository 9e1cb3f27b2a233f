"""
Test suite for the clinic WhatsApp scheduling service.

Running Tests:
    # Run all tests
    pytest -v

    # Run one module
    pytest tests/unit/test_conversation_flow.py -v

Shared fixtures (in-memory calendar, fixed clinic clock) live in
tests/conftest.py. No test touches the network.
"""
