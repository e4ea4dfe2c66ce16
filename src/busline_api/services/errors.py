"""Error taxonomy shared by the upstream fetchers and the poller."""


class FetchError(Exception):
    """Network or HTTP failure talking to an upstream feed."""


class DecodeError(Exception):
    """Upstream payload could not be parsed."""


class ReferenceDataMissing(Exception):
    """No reference snapshot has been loaded yet."""
