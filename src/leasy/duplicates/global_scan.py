"""
Portfolio-wide duplicate scan and the admin review workflow.

Unlike import-time detection, the scan compares stored listings pairwise
and only counts a component (address, specs, title, description) when it
clears its own floor. Matches are saved as ``DuplicateGroup`` rows that an
admin later merges or dismisses.
"""
import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from ..database import (
    db, Property, DuplicateGroup, DuplicateGroupProperty, DuplicateDetectionLog,
    MergedPropertyTracking, DuplicateFalsePositive, PropertyMediaHash
)
from ..errors import NotFoundError, ValidationError
from ..imports.csv_utils import convert_to_numeric
from ..models import GroupStatus
from .similarity import token_jaccard, within_percent

LOGGER = logging.getLogger(__name__)

MATCH_THRESHOLD = 85
MIN_COMPONENTS = 2

# (floor, weight) per component
ADDRESS_COMPONENT = (70, 0.40)
SPECS_COMPONENT = (60, 0.35)
TITLE_COMPONENT = (40, 0.15)
DESCRIPTION_COMPONENT = (30, 0.10)


@dataclass
class GlobalDuplicateMatch:
    property1: Dict[str, Any]
    property2: Dict[str, Any]
    confidence_score: float
    reasons: List[str] = field(default_factory=list)

    @property
    def property_ids(self):
        return [self.property1.get('id'), self.property2.get('id')]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'property1': self.property1,
            'property2': self.property2,
            'confidence_score': self.confidence_score,
            'reasons': self.reasons,
        }


def _as_dict(prop) -> Dict[str, Any]:
    if isinstance(prop, dict):
        return prop
    return prop.to_dict()


def _norm(value) -> str:
    return str(value).lower().strip() if value is not None else ''


# ==================== SCORING ====================

def calculate_address_similarity(prop1: Dict[str, Any], prop2: Dict[str, Any]) -> float:
    """Percent of the achievable address score; missing on both sides counts as equal"""
    score = 0
    max_score = 40
    if _norm(prop1.get('street_name')) == _norm(prop2.get('street_name')):
        score += 40
        if _norm(prop1.get('street_number')) == _norm(prop2.get('street_number')):
            score += 20
            max_score += 20

    max_score += 20
    if _norm(prop1.get('city')) == _norm(prop2.get('city')):
        score += 20

    max_score += 20
    if _norm(prop1.get('zip_code')) == _norm(prop2.get('zip_code')):
        score += 20

    max_score += 20
    if _norm(prop1.get('region')) == _norm(prop2.get('region')):
        score += 10
    if _norm(prop1.get('country')) == _norm(prop2.get('country')):
        score += 10

    return score / max_score * 100


def calculate_specs_similarity(prop1: Dict[str, Any], prop2: Dict[str, Any]) -> float:
    score = 0
    if prop1.get('bedrooms') == prop2.get('bedrooms'):
        score += 25
    if prop1.get('bathrooms') == prop2.get('bathrooms'):
        score += 15
    if within_percent(prop1.get('square_meters'), prop2.get('square_meters'), 5):
        score += 30
    if within_percent(prop1.get('monthly_rent'), prop2.get('monthly_rent'), 10):
        score += 30
    return float(score)


def calculate_text_similarity(text1: Optional[str], text2: Optional[str]) -> float:
    return token_jaccard(text1, text2)


def _compare_pair(prop1: Dict[str, Any], prop2: Dict[str, Any]) -> Optional[GlobalDuplicateMatch]:
    components = (
        ('Address similarity', calculate_address_similarity(prop1, prop2), ADDRESS_COMPONENT),
        ('Property specs similarity', calculate_specs_similarity(prop1, prop2), SPECS_COMPONENT),
        ('Title similarity', calculate_text_similarity(prop1.get('title'), prop2.get('title')), TITLE_COMPONENT),
        ('Description similarity',
         calculate_text_similarity(prop1.get('description'), prop2.get('description')), DESCRIPTION_COMPONENT),
    )

    total = 0.0
    reasons = []
    for label, score, (floor, weight) in components:
        if score > floor:
            total += score * weight
            reasons.append(f'{label}: {score:.1f}%')

    if len(reasons) >= MIN_COMPONENTS and total >= MATCH_THRESHOLD:
        return GlobalDuplicateMatch(prop1, prop2, round(total, 2), reasons)
    return None


def detect_global_duplicates(properties: Iterable, false_positives=None) -> List[GlobalDuplicateMatch]:
    """
    Compare every pair of listings.

    Args:
        properties: Property rows or their ``to_dict()`` output
        false_positives: ordered ``(id, id)`` pairs to skip

    Returns:
        Matches sorted by confidence, highest first
    """
    items = [_as_dict(p) for p in properties]
    skip = false_positives or set()
    matches = []

    for i in range(len(items)):
        for j in range(i + 1, len(items)):
            prop1, prop2 = items[i], items[j]
            id1, id2 = prop1.get('id'), prop2.get('id')
            if id1 is not None and id2 is not None and DuplicateFalsePositive.ordered(id1, id2) in skip:
                continue
            match = _compare_pair(prop1, prop2)
            if match:
                matches.append(match)

    matches.sort(key=lambda m: m.confidence_score, reverse=True)
    return matches


def scan_user_portfolio(user_id: int) -> List[GlobalDuplicateMatch]:
    """Scan one user's listings, skipping pairs already dismissed"""
    properties = Property.query.filter_by(user_id=user_id).order_by(Property.created_at).all()
    if len(properties) < 2:
        return []
    matches = detect_global_duplicates(properties, DuplicateFalsePositive.pair_set())
    LOGGER.info("scan for user %s: %d listings, %d matches", user_id, len(properties), len(matches))
    return matches


# ==================== REVIEW WORKFLOW ====================

def _pending_pairs():
    pairs = set()
    for group in DuplicateGroup.query.filter_by(status=GroupStatus.PENDING.value).all():
        ids = sorted(group.property_ids())
        for i in range(len(ids)):
            for j in range(i + 1, len(ids)):
                pairs.add((ids[i], ids[j]))
    return pairs


def _log_action(action_type, group_id=None, actor_id=None, affected=None, details=None):
    db.session.add(DuplicateDetectionLog(
        action_type=action_type,
        duplicate_group_id=group_id,
        admin_user_id=actor_id,
        affected_properties=json.dumps(affected or []),
        details=json.dumps(details or {}),
    ))


def save_duplicate_groups(matches: List[GlobalDuplicateMatch], actor_id: Optional[int] = None) -> List[DuplicateGroup]:
    """Persist matches as pending groups; pairs already pending are skipped"""
    existing = _pending_pairs()
    created = []

    for match in matches:
        id1, id2 = match.property_ids
        pair = DuplicateFalsePositive.ordered(id1, id2)
        if pair in existing:
            continue
        group = DuplicateGroup(confidence_score=match.confidence_score, status=GroupStatus.PENDING.value)
        for property_id in pair:
            member = DuplicateGroupProperty(property_id=property_id)
            member.set_reasons(match.reasons)
            group.members.append(member)
        db.session.add(group)
        existing.add(pair)
        created.append(group)

    if created:
        db.session.flush()
        _log_action('scan', actor_id=actor_id,
                    affected=sorted({pid for g in created for pid in g.property_ids()}),
                    details={'groups_created': len(created), 'matches': len(matches)})
    db.session.commit()
    return created


def get_pending_groups() -> List[DuplicateGroup]:
    """Groups waiting for review, most confident first"""
    return (DuplicateGroup.query
            .filter_by(status=GroupStatus.PENDING.value)
            .order_by(DuplicateGroup.confidence_score.desc())
            .all())


def _get_group(group_id: int) -> DuplicateGroup:
    group = db.session.get(DuplicateGroup, group_id)
    if group is None:
        raise NotFoundError(f'Duplicate group {group_id} not found')
    return group


def merge_duplicate_properties(
    group_id: int,
    target_property_id: int,
    property_ids: List[int],
    actor_id: Optional[int] = None,
    merge_reason: Optional[str] = None
) -> Dict[str, Any]:
    """
    Keep the target listing and delete the others in the group.

    Every listing involved gets a fingerprint entry so a later import of the
    same data is recognised as an already merged duplicate.
    """
    group = _get_group(group_id)
    if group.status != GroupStatus.PENDING.value:
        raise ValidationError(f'Duplicate group {group_id} is already {group.status}')
    if target_property_id not in property_ids:
        raise ValidationError('Target property must be one of the merged properties')

    originals = Property.query.filter(Property.id.in_(property_ids)).all()
    if not any(p.id == target_property_id for p in originals):
        raise NotFoundError(f'Property {target_property_id} not found')

    for prop in originals:
        db.session.add(MergedPropertyTracking(
            original_property_id=prop.id,
            target_property_id=target_property_id,
            merged_by=actor_id,
            original_data=json.dumps(prop.to_dict(include_media=False)),
            merge_reason=merge_reason,
            fingerprint=generate_property_fingerprint(prop),
        ))

    deleted = []
    for prop in originals:
        if prop.id == target_property_id:
            continue
        PropertyMediaHash.query.filter_by(property_id=prop.id).delete()
        db.session.delete(prop)
        deleted.append(prop.id)

    group.status = GroupStatus.MERGED.value
    group.reviewed_by = actor_id
    group.reviewed_at = datetime.utcnow()
    group.merge_target_property_id = target_property_id

    _log_action('merge', group_id=group.id, actor_id=actor_id, affected=list(property_ids),
                details={'target_property_id': target_property_id, 'merge_reason': merge_reason})
    db.session.commit()

    LOGGER.info("merged group %s into property %s, deleted %s", group_id, target_property_id, deleted)
    return {'group_id': group.id, 'target_property_id': target_property_id, 'deleted_property_ids': deleted}


def dismiss_duplicate_group(group_id: int, actor_id: Optional[int] = None, notes: Optional[str] = None) -> DuplicateGroup:
    """Mark a group as a false positive so later scans skip its pairs"""
    group = _get_group(group_id)
    if group.status != GroupStatus.PENDING.value:
        raise ValidationError(f'Duplicate group {group_id} is already {group.status}')
    group.status = GroupStatus.DISMISSED.value
    group.reviewed_by = actor_id
    group.reviewed_at = datetime.utcnow()
    group.notes = notes

    ids = group.property_ids()
    for i in range(len(ids)):
        for j in range(i + 1, len(ids)):
            DuplicateFalsePositive.mark(ids[i], ids[j], actor_id)

    _log_action('dismiss', group_id=group.id, actor_id=actor_id, details={'notes': notes})
    db.session.commit()
    return group


# ==================== FINGERPRINTS ====================

def _fingerprint_number(value) -> str:
    number = convert_to_numeric(value)
    if number is None:
        return '0'
    number = float(number)
    return str(int(number)) if number.is_integer() else str(number)


def generate_property_fingerprint(prop) -> str:
    """md5 over the identifying fields of a listing"""
    data = _as_dict(prop)
    parts = [_norm(data.get(name)) for name in ('title', 'street_name', 'street_number', 'zip_code', 'city')]
    parts += [_fingerprint_number(data.get(name)) for name in ('monthly_rent', 'bedrooms', 'square_meters')]
    return hashlib.md5('|'.join(parts).encode('utf-8')).hexdigest()


def check_for_merged_duplicate(prop) -> bool:
    """True when this listing data was already merged away"""
    fingerprint = generate_property_fingerprint(prop)
    return MergedPropertyTracking.query.filter_by(fingerprint=fingerprint).first() is not None


# ==================== CLEANUP ====================

def cleanup_exact_duplicates(user_id: Optional[int] = None, actor_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Delete listings with the exact same title, street and city, keeping the oldest.

    Values are compared as stored; case or spacing variants are not exact
    duplicates and stay.

    Returns:
        ``{'deleted_count': int, 'duplicate_keys': [str, ...]}``
    """
    query = Property.query
    if user_id is not None:
        query = query.filter_by(user_id=user_id)
    properties = query.order_by(Property.created_at, Property.id).all()

    seen = set()
    duplicate_keys = []
    to_delete = []
    for prop in properties:
        key = '|'.join(str(getattr(prop, name) or '') for name in ('title', 'street_name', 'city'))
        if key in seen:
            to_delete.append(prop)
            if key not in duplicate_keys:
                duplicate_keys.append(key)
        else:
            seen.add(key)

    deleted_ids = [p.id for p in to_delete]
    for prop in to_delete:
        PropertyMediaHash.query.filter_by(property_id=prop.id).delete()
        db.session.delete(prop)

    if to_delete:
        _log_action('cleanup', actor_id=actor_id, affected=deleted_ids,
                    details={'duplicate_keys': duplicate_keys, 'user_id': user_id})
    db.session.commit()

    LOGGER.info("cleanup removed %d exact duplicates", len(deleted_ids))
    return {'deleted_count': len(deleted_ids), 'duplicate_keys': duplicate_keys}
