"""Portfolio scans, the merge/dismiss review workflow and exact-duplicate cleanup."""

import pytest

from leasy.database import (
    Property, DuplicateGroup, DuplicateDetectionLog, MergedPropertyTracking, DuplicateFalsePositive
)
from leasy.duplicates import (
    detect_global_duplicates, scan_user_portfolio, save_duplicate_groups, get_pending_groups,
    merge_duplicate_properties, dismiss_duplicate_group, generate_property_fingerprint,
    check_for_merged_duplicate, cleanup_exact_duplicates
)
from leasy.duplicates.global_scan import calculate_address_similarity, calculate_specs_similarity
from leasy.errors import NotFoundError, ValidationError


def _listing(**overrides):
    data = {
        'id': 1,
        'title': 'Bright flat in Mitte',
        'description': 'Quiet courtyard flat close to the park',
        'street_name': 'Main Street',
        'street_number': '5',
        'zip_code': '10115',
        'city': 'Berlin',
        'country': 'Germany',
        'bedrooms': 2,
        'bathrooms': 1,
        'square_meters': 70,
        'monthly_rent': 1200,
    }
    data.update(overrides)
    return data


def test_address_similarity_full_match():
    assert calculate_address_similarity(_listing(), _listing(id=2)) == 100


def test_address_similarity_other_number():
    score = calculate_address_similarity(_listing(), _listing(street_number='7', zip_code='10117'))
    # street 40 + city 20 + region and country 20, out of 100
    assert score == 80


def test_address_similarity_other_street():
    score = calculate_address_similarity(_listing(), _listing(street_name='Side Street'))
    assert score == 60


def test_specs_similarity():
    assert calculate_specs_similarity(_listing(), _listing()) == 100
    assert calculate_specs_similarity(_listing(), _listing(bedrooms=3, monthly_rent=1500)) == 45


def test_detect_global_duplicates_finds_pair():
    items = [_listing(id=1), _listing(id=2), _listing(id=3, title='Farm', description='Barn',
                                                      street_name='Field Road', city='Potsdam',
                                                      zip_code='14467', bedrooms=5, bathrooms=3,
                                                      square_meters=250, monthly_rent=2500)]
    matches = detect_global_duplicates(items)

    assert len(matches) == 1
    assert matches[0].property_ids == [1, 2]
    assert matches[0].confidence_score == 100
    assert matches[0].reasons[0].startswith('Address similarity')


def test_detect_global_duplicates_needs_two_components():
    """Same address alone is not enough"""
    other = _listing(id=2, title='Loft', description='Industrial', bedrooms=4, bathrooms=2,
                     square_meters=140, monthly_rent=2600)
    assert detect_global_duplicates([_listing(), other]) == []


def test_detect_global_duplicates_skips_false_positives():
    matches = detect_global_duplicates([_listing(id=5), _listing(id=3)], false_positives={(3, 5)})
    assert matches == []


def test_scan_user_portfolio(make_property, user, other_user):
    first = make_property()
    second = make_property()
    make_property(owner=other_user)

    matches = scan_user_portfolio(user.id)

    assert len(matches) == 1
    assert sorted(matches[0].property_ids) == sorted([first.id, second.id])


def test_scan_needs_two_listings(make_property, user):
    make_property()
    assert scan_user_portfolio(user.id) == []


def test_save_duplicate_groups_skips_pending_pairs(make_property, user):
    make_property()
    make_property()
    matches = scan_user_portfolio(user.id)

    created = save_duplicate_groups(matches, user.id)
    again = save_duplicate_groups(scan_user_portfolio(user.id), user.id)

    assert len(created) == 1
    assert again == []
    assert [g.id for g in get_pending_groups()] == [created[0].id]
    assert DuplicateDetectionLog.query.filter_by(action_type='scan').count() == 1


def test_merge_duplicate_properties(make_property, user, admin, session):
    keep = make_property()
    drop = make_property()
    drop_data = drop.to_dict()
    group = save_duplicate_groups(scan_user_portfolio(user.id), user.id)[0]

    outcome = merge_duplicate_properties(group.id, keep.id, [keep.id, drop.id], admin.id, 'same flat')

    assert outcome['deleted_property_ids'] == [drop.id]
    assert session.get(Property, keep.id) is not None
    assert session.get(Property, drop_data['id']) is None
    assert session.get(DuplicateGroup, group.id).status == 'merged'
    assert MergedPropertyTracking.query.count() == 2
    assert check_for_merged_duplicate(drop_data)
    assert DuplicateDetectionLog.query.filter_by(action_type='merge').count() == 1


def test_merge_rejects_target_outside_group(make_property, user):
    first = make_property()
    second = make_property()
    group = save_duplicate_groups(scan_user_portfolio(user.id))[0]

    with pytest.raises(ValidationError):
        merge_duplicate_properties(group.id, 999, [first.id, second.id])


def test_merge_unknown_group(app):
    with pytest.raises(NotFoundError):
        merge_duplicate_properties(42, 1, [1, 2])


def test_dismiss_records_false_positive(make_property, user, admin):
    make_property()
    make_property()
    group = save_duplicate_groups(scan_user_portfolio(user.id))[0]

    dismissed = dismiss_duplicate_group(group.id, admin.id, 'two units in one building')

    assert dismissed.status == 'dismissed'
    assert dismissed.notes == 'two units in one building'
    assert DuplicateFalsePositive.query.count() == 1
    assert scan_user_portfolio(user.id) == []


def test_dismiss_rejects_merged_group(make_property, user, admin, session):
    keep = make_property()
    drop = make_property()
    group = save_duplicate_groups(scan_user_portfolio(user.id))[0]
    merge_duplicate_properties(group.id, keep.id, [keep.id, drop.id], admin.id)

    with pytest.raises(ValidationError):
        dismiss_duplicate_group(group.id, admin.id, 'too late')

    assert session.get(DuplicateGroup, group.id).status == 'merged'
    assert DuplicateFalsePositive.query.count() == 0


def test_fingerprint_is_stable_across_formatting():
    first = generate_property_fingerprint(_listing(title='  Bright Flat ', monthly_rent=1200.0))
    second = generate_property_fingerprint(_listing(title='bright flat', monthly_rent='1200'))
    assert first == second
    assert len(first) == 32


def test_fingerprint_changes_with_rent():
    assert generate_property_fingerprint(_listing()) != generate_property_fingerprint(_listing(monthly_rent=1300))


def test_check_for_merged_duplicate_without_history(app):
    assert not check_for_merged_duplicate(_listing())


def test_cleanup_exact_duplicates_keeps_oldest(make_property, user, other_user, session):
    oldest = make_property(title='Flat A')
    make_property(title='Flat A')
    make_property(title='Flat B')
    foreign = make_property(owner=other_user, title='Flat A')

    outcome = cleanup_exact_duplicates(user.id, user.id)

    assert outcome == {'deleted_count': 1, 'duplicate_keys': ['Flat A|Main Street|Berlin']}
    remaining = {p.id for p in Property.query.all()}
    assert oldest.id in remaining
    assert foreign.id in remaining
    assert len(remaining) == 3


def test_cleanup_keeps_case_variants(make_property, user):
    make_property(title='Loft', street_name='Main Street', city='Berlin')
    make_property(title='loft', street_name='main street', city='berlin')
    make_property(title='Loft ', street_name='Main Street', city='Berlin')

    outcome = cleanup_exact_duplicates(user.id)

    assert outcome == {'deleted_count': 0, 'duplicate_keys': []}
    assert Property.query.filter_by(user_id=user.id).count() == 3


def test_fingerprint_parses_formatted_numbers():
    plain = generate_property_fingerprint(_listing(monthly_rent=1200))
    assert generate_property_fingerprint(_listing(monthly_rent='€1,200')) == plain
    assert generate_property_fingerprint(_listing(monthly_rent='1,200.00')) == plain
    assert generate_property_fingerprint(_listing(monthly_rent='n/a')) == \
        generate_property_fingerprint(_listing(monthly_rent=None))
