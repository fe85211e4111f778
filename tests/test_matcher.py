from conftest import make_cronjob, make_workload

from cjsync.matcher import (
    MANAGED_BY_ANNOTATION,
    MANAGED_BY_LABEL,
    default_rules,
    find_matches,
    matches_by_annotation,
    matches_by_image,
    matches_by_label,
)


def test_label_rule():
    web = make_workload("web", ("nginx", "nginx:1.21"))
    assert matches_by_label(web, make_cronjob("a", labels={MANAGED_BY_LABEL: "web"}))
    assert not matches_by_label(web, make_cronjob("b", labels={MANAGED_BY_LABEL: "api"}))
    assert not matches_by_label(web, make_cronjob("c"))


def test_annotation_rule_needs_namespace_and_name():
    web = make_workload("web", namespace="shop")
    assert matches_by_annotation(web, make_cronjob("a", namespace="shop", annotations={MANAGED_BY_ANNOTATION: "shop/web"}))
    assert not matches_by_annotation(web, make_cronjob("b", namespace="shop", annotations={MANAGED_BY_ANNOTATION: "web"}))
    assert not matches_by_annotation(web, make_cronjob("c", namespace="shop", annotations={MANAGED_BY_ANNOTATION: "other/web"}))


def test_image_rule():
    web = make_workload("web", ("nginx", "nginx:1.21"), ("sidecar", "envoy:1.27"))
    assert matches_by_image(web, make_cronjob("a", ("job", "envoy:1.27")))
    assert not matches_by_image(web, make_cronjob("b", ("job", "nginx:1.22")))
    assert not matches_by_image(make_workload("empty"), make_cronjob("c", ("job", "nginx:1.21")))


def test_candidate_matching_several_rules_appears_once():
    web = make_workload("web", ("nginx", "nginx:1.21"))
    cj = make_cronjob(
        "all-three",
        ("nginx", "nginx:1.21"),
        labels={MANAGED_BY_LABEL: "web"},
        annotations={MANAGED_BY_ANNOTATION: "default/web"},
    )
    assert find_matches(web, [cj]) == [cj]


def test_find_matches_keeps_list_order_and_skips_unrelated():
    web = make_workload("web", ("nginx", "nginx:1.21"))
    first = make_cronjob("first", ("x", "busybox"), labels={MANAGED_BY_LABEL: "web"})
    unrelated = make_cronjob("unrelated", ("x", "busybox"))
    second = make_cronjob("second", ("nginx", "nginx:1.21"))
    assert [cj.name for cj in find_matches(web, [first, unrelated, second])] == ["first", "second"]


def test_shared_base_image_is_a_known_false_positive():
    web = make_workload("web", ("app", "alpine:3.18"))
    related = make_cronjob("cleanup", ("app", "alpine:3.18"), labels={MANAGED_BY_LABEL: "web"})
    unrelated = make_cronjob("billing-export", ("export", "alpine:3.18"))
    matched = find_matches(web, [related, unrelated])
    assert [cj.name for cj in matched] == ["cleanup", "billing-export"]


def test_image_rule_can_be_switched_off():
    web = make_workload("web", ("app", "alpine:3.18"))
    unrelated = make_cronjob("billing-export", ("export", "alpine:3.18"))
    assert find_matches(web, [unrelated], default_rules(match_by_image=False)) == []


def test_other_namespaces_are_ignored():
    web = make_workload("web", ("nginx", "nginx:1.21"), namespace="a")
    elsewhere = make_cronjob("report", ("nginx", "nginx:1.21"), namespace="b", labels={MANAGED_BY_LABEL: "web"})
    assert find_matches(web, [elsewhere]) == []
