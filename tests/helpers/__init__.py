from tests.helpers.token_endpoint import NOW, FakeTokenEndpoint

__all__ = ["NOW", "FakeTokenEndpoint"]
