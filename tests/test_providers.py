import dataclasses

import pytest

from kindproviders.providers import Provider, ProviderInfo


def test_provider_info_defaults_are_false():
    info = ProviderInfo()
    assert dataclasses.astuple(info) == (False, False, False, False, False)


def test_provider_info_equality_and_replace():
    info = ProviderInfo(rootless=True, cgroup2=True)
    assert info == ProviderInfo(rootless=True, cgroup2=True)
    changed = dataclasses.replace(info, supports_cpu_shares=True)
    assert changed.supports_cpu_shares is True
    assert changed.rootless is True
    assert info.supports_cpu_shares is False


def test_provider_is_abstract():
    with pytest.raises(TypeError):
        Provider()


def test_complete_provider_can_be_used():
    class Static(Provider):
        def list_clusters(self):
            return ["kind"]

        def list_nodes(self, cluster):
            return []

        def delete_nodes(self, nodes):
            return None

        def info(self):
            return ProviderInfo(rootless=True)

    provider = Static()
    assert provider.list_clusters() == ["kind"]
    assert provider.info() == ProviderInfo(rootless=True)
    assert provider.info() != ProviderInfo()