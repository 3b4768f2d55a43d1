from app.services.reviewer_assignment import ReviewerRules, Submitter, assign_reviewer, check_region_permission

DEFAULT = "d0000000-0000-4000-8000-000000000000"
SALE = "50000000-0000-4000-8000-000000000000"
FAMAGUSTA = "f0000000-0000-4000-8000-000000000000"
LIMASSOL = "10000000-0000-4000-8000-000000000000"
AGENT = "a0000000-0000-4000-8000-000000000000"

RULES = ReviewerRules(
    default_reviewer_id=DEFAULT,
    sale_primary_reviewer_id=SALE,
    regional_reviewer_ids={"famagusta": FAMAGUSTA, "limassol": LIMASSOL},
    regional_only_regions=frozenset({"famagusta"}),
)


def test_rent_is_reviewed_by_the_submitter():
    who = assign_reviewer(region="Limassol", purpose="rent", submitter=Submitter(external_user_id=AGENT), rules=RULES)
    assert who == AGENT


def test_sale_in_regional_only_region_goes_to_regional_account():
    assert assign_reviewer(region=" Famagusta ", purpose="sale", submitter=None, rules=RULES) == FAMAGUSTA


def test_other_sales_go_to_primary_sale_reviewer():
    assert assign_reviewer(region="Limassol", purpose="sale", submitter=None, rules=RULES) == SALE


def test_rent_without_submitter_falls_back_to_region_then_default():
    assert assign_reviewer(region="Limassol", purpose="rent", submitter=Submitter(), rules=RULES) == LIMASSOL
    assert assign_reviewer(region=None, purpose="rent", submitter=None, rules=RULES) == DEFAULT


def test_sale_without_primary_reviewer_uses_default():
    rules = ReviewerRules(default_reviewer_id=DEFAULT)
    assert assign_reviewer(region="Paphos", purpose="sale", submitter=None, rules=rules) == DEFAULT


def test_assignment_is_deterministic():
    args = dict(region="Famagusta", purpose="sale", submitter=Submitter(email="x@y.z"), rules=RULES)
    assert assign_reviewer(**args) == assign_reviewer(**args)


def test_agents_may_only_list_in_their_own_region():
    assert check_region_permission(agent_region="Limassol", target_region="limassol ").allowed

    denied = check_region_permission(agent_region="Limassol", target_region="Paphos")
    assert not denied.allowed
    assert "outside your region" in denied.message


def test_admins_and_unassigned_agents_may_list_anywhere():
    assert check_region_permission(agent_region="Limassol", target_region="Paphos", is_admin=True).allowed
    assert check_region_permission(agent_region=None, target_region="Paphos").allowed
