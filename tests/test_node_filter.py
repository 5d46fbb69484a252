import pytest

from hivedeploy.errors import EmptyFilterRuleError, UnknownError
from hivedeploy.node_filter import NodeFilter, Rule, RuleKind
from hivedeploy.nodes import NodeConfig, NodeName


@pytest.mark.parametrize("text", ["", "\t", "    "])
def test_empty_filter(text):
    assert NodeFilter(text).rules == []


@pytest.mark.parametrize("text", [",", "a,,b", "a,b,c,"])
def test_empty_filter_rule(text):
    with pytest.raises(EmptyFilterRuleError):
        NodeFilter(text)


def test_filter_rule_mixed():
    assert NodeFilter("@router,gamma-*").rules == [
        Rule(RuleKind.TAG, "router"),
        Rule(RuleKind.NAME, "gamma-*"),
    ]
    assert NodeFilter("a, \t@b ,    c-*").rules == [
        Rule(RuleKind.NAME, "a"),
        Rule(RuleKind.TAG, "b"),
        Rule(RuleKind.NAME, "c-*"),
    ]


def test_has_node_config_rules():
    assert NodeFilter("@router,gamma-*").has_node_config_rules() is True
    assert NodeFilter("gamma-*").has_node_config_rules() is False


def test_filter_node_names():
    nodes = [NodeName("lax-alpha"), NodeName("lax-beta"), NodeName("sfo-gamma")]
    assert NodeFilter("lax-alpha").filter_node_names(nodes) == {NodeName("lax-alpha")}
    assert NodeFilter("lax-*").filter_node_names(nodes) == {
        NodeName("lax-alpha"),
        NodeName("lax-beta"),
    }


def test_filter_node_names_with_tag_rule_fails():
    with pytest.raises(UnknownError):
        NodeFilter("@web").filter_node_names([NodeName("alpha")])


@pytest.fixture
def nodes():
    result = {
        NodeName("alpha"): NodeConfig(tags=["web", "infra-lax"]),
        NodeName("beta"): NodeConfig(tags=["router", "infra-sfo"]),
        NodeName("gamma-a"): NodeConfig(tags=["controller"]),
        NodeName("gamma-b"): NodeConfig(tags=["ewaste"]),
    }
    assert len(result) == 4
    return result


def test_filter_node_configs(nodes):
    assert NodeFilter("@web").filter_node_configs(nodes) == {NodeName("alpha")}
    assert NodeFilter("@infra-*").filter_node_configs(nodes) == {
        NodeName("alpha"),
        NodeName("beta"),
    }
    assert NodeFilter("@router,@controller").filter_node_configs(nodes) == {
        NodeName("beta"),
        NodeName("gamma-a"),
    }
    assert NodeFilter("@router,gamma-*").filter_node_configs(nodes.items()) == {
        NodeName("beta"),
        NodeName("gamma-a"),
        NodeName("gamma-b"),
    }


def test_blank_filter_matches_no_configs(nodes):
    assert NodeFilter("  ").filter_node_configs(nodes) == set()