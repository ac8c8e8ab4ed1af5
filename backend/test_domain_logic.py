"""Tests for the per-domain update rules."""
import math
import random
from unittest.mock import MagicMock

import pytest

from domain_logic import DOMAIN_LOGIC, DomainContext, update_threat, COLLAPSED_COHERENCE, QUANTUM_EFFECTS
from regions import Region, Population
from threats import (
    Threat,
    ThreatDomain,
    ThreatType,
    BiologicalProperties,
    CyberProperties,
    EconomicProperties,
    EnvironmentalProperties,
    GeopoliticalProperties,
    InformationProperties,
    QuantumProperties,
    RadiologicalProperties,
    RoboticProperties,
    SpaceProperties,
    WMDProperties,
)


def make_ctx(region=None):
    events = []
    spawned = []

    def spawn(domain, threat_type, severity, lat, lon, properties=None):
        spawned.append((domain, threat_type, severity, lat, lon, properties))

    ctx = DomainContext(
        region_for=lambda threat: region,
        log_event=lambda event_type, data: events.append((event_type, data)),
        damage_region=lambda r, stability, economy: r.apply_damage(stability, economy),
        drain_owner_funds=MagicMock(return_value=0.0),
        spawn_threat=spawn,
        rng=random.Random(0),
    )
    return ctx, events, spawned


def make_region(**kwargs):
    return Region(id="r", name="Testland", centroid=(0.0, 0.0), radius=1000, **kwargs)


def make_threat(domain, properties, severity=0.5, **kwargs):
    return Threat(id="threat-1", domain=domain, type=ThreatType.REAL, severity=severity,
                  properties=properties, **kwargs)


class TestDispatch:
    """Tests for the domain table."""

    def test_every_domain_has_a_rule(self):
        assert set(DOMAIN_LOGIC) == set(ThreatDomain)

    def test_missing_bag_is_a_noop(self):
        threat = make_threat(ThreatDomain.ENV, None, severity=0.4)
        ctx, events, _ = make_ctx()
        update_threat(threat, 1.0, ctx)
        assert threat.severity == 0.4
        assert events == []


class TestQuantum:
    """Tests for coherence decay and collapse."""

    def test_decay(self):
        threat = make_threat(ThreatDomain.QUANTUM, QuantumProperties(coherence_time=5.0), severity=0.5)
        ctx, events, _ = make_ctx()
        update_threat(threat, 10.0, ctx)
        assert threat.properties.coherence_time == pytest.approx(4.95)
        assert events == []

    def test_collapse_fires_once(self):
        threat = make_threat(ThreatDomain.QUANTUM, QuantumProperties(coherence_time=1.001),
                             severity=0.8, visibility=0.5)
        ctx, events, _ = make_ctx()
        update_threat(threat, 1.0, ctx)
        assert threat.severity == pytest.approx(0.4)
        assert threat.visibility == pytest.approx(0.4)
        assert threat.properties.coherence_time == COLLAPSED_COHERENCE
        assert threat.properties.collapsed
        assert len(threat.properties.quantum_effects) == 1
        assert threat.properties.quantum_effects[0] in QUANTUM_EFFECTS

        update_threat(threat, 100.0, ctx)
        assert [e[0] for e in events] == ["QUANTUM_DECOHERENCE"]
        assert threat.severity == pytest.approx(0.4)

    def test_large_step_past_zero_collapses_once(self):
        threat = make_threat(ThreatDomain.QUANTUM, QuantumProperties(coherence_time=2.0), severity=1.0)
        ctx, events, _ = make_ctx()
        update_threat(threat, 1000.0, ctx)
        assert threat.properties.coherence_time == COLLAPSED_COHERENCE
        assert len(events) == 1


class TestRobot:
    """Tests for robotic adaptation, failure modes and emergence."""

    def test_deep_learning_bonus(self):
        plain = make_threat(ThreatDomain.ROBOT, RoboticProperties(adaptation_rate=0.5, collective_intelligence=0.0))
        deep = make_threat(ThreatDomain.ROBOT, RoboticProperties(adaptation_rate=0.5, collective_intelligence=0.0,
                                                                 learning_algorithms=["DEEP_LEARNING"]))
        ctx, _, _ = make_ctx()
        update_threat(plain, 10.0, ctx)
        update_threat(deep, 10.0, ctx)
        assert plain.properties.collective_intelligence == pytest.approx(0.025)
        assert deep.properties.collective_intelligence == pytest.approx(0.0375)

    def test_failure_mode_and_emergence(self):
        props = RoboticProperties(adaptation_rate=0.01, collective_intelligence=0.75, decision_level=0.69)
        threat = make_threat(ThreatDomain.ROBOT, props)
        ctx, events, _ = make_ctx()
        update_threat(threat, 4.0, ctx)
        names = [e[0] for e in events]
        assert "ROBOTIC_FAILURE_MODE" in names
        assert "ROBOTIC_EMERGENCE" in names
        assert len(props.failure_modes) == 1
        assert props.emergent_behaviors == ["CoordinatedAssault"]

        update_threat(threat, 4.0, ctx)
        assert props.emergent_behaviors == ["CoordinatedAssault"]
        assert [e[0] for e in events].count("ROBOTIC_EMERGENCE") == 1


class TestBio:
    """Tests for infectivity growth and quarantine."""

    def test_density_drives_infectivity(self):
        region = make_region(population=Population(count=2e9))
        threat = make_threat(ThreatDomain.BIO, BiologicalProperties(lethality=0.1, infectivity=0.2))
        ctx, _, _ = make_ctx(region)
        update_threat(threat, 10.0, ctx)
        assert threat.properties.lethality == pytest.approx(0.11)
        assert threat.properties.infectivity == pytest.approx(0.25)
        assert threat.severity == pytest.approx(0.5 + 0.11 * 0.25 * 0.01 * 10)

    def test_quarantine_reduces_infectivity(self):
        region = make_region()
        region.add_buff("QUARANTINE")
        threat = make_threat(ThreatDomain.BIO, BiologicalProperties(infectivity=0.2))
        ctx, _, _ = make_ctx(region)
        update_threat(threat, 10.0, ctx)
        assert threat.properties.infectivity == pytest.approx(0.1)


class TestCyber:
    """Tests for stealth decay, scrubbing and ransomware."""

    def test_visibility_rises_as_stealth_falls(self):
        threat = make_threat(ThreatDomain.CYBER, CyberProperties(stealth=0.5), visibility=0.1)
        ctx, _, _ = make_ctx(make_region())
        update_threat(threat, 10.0, ctx)
        assert threat.properties.stealth == pytest.approx(0.4)
        assert threat.visibility == pytest.approx(0.6)
        assert threat.severity == pytest.approx(0.52)

    def test_network_scrub(self):
        region = make_region()
        region.add_buff("NETWORK_SCRUB")
        threat = make_threat(ThreatDomain.CYBER, CyberProperties())
        ctx, _, _ = make_ctx(region)
        update_threat(threat, 10.0, ctx)
        assert threat.severity == pytest.approx(0.4)

    def test_ransomware_drains_owner(self):
        region = make_region(owner="mitigators")
        threat = make_threat(ThreatDomain.CYBER, CyberProperties(), sub_type="RANSOMWARE")
        ctx, _, _ = make_ctx(region)
        update_threat(threat, 1.0, ctx)
        ctx.drain_owner_funds.assert_called_once()
        _, amount = ctx.drain_owner_funds.call_args[0]
        assert amount == pytest.approx(threat.severity * 10)


class TestInfoAndEcon:
    """Tests for INFO spread and ECON contagion."""

    def test_info_spread(self):
        threat = make_threat(ThreatDomain.INFO, InformationProperties(polarization_factor=0.5))
        ctx, _, _ = make_ctx(make_region())
        update_threat(threat, 10.0, ctx)
        assert threat.spread_rate == pytest.approx(0.05)

    def test_counter_propaganda(self):
        region = make_region()
        region.add_buff("COUNTER_PROPAGANDA")
        threat = make_threat(ThreatDomain.INFO, InformationProperties(), spread_rate=0.5)
        ctx, _, _ = make_ctx(region)
        update_threat(threat, 10.0, ctx)
        assert threat.spread_rate == pytest.approx(0.3)

    def test_econ_contagion_without_region(self):
        threat = make_threat(ThreatDomain.ECON, EconomicProperties())
        ctx, _, _ = make_ctx(None)
        update_threat(threat, 10.0, ctx)
        assert threat.properties.contagion_risk == pytest.approx(0.05)


class TestOneShots:
    """Tests for GEO and WMD impacts."""

    def test_geo_hits_once_and_ends(self):
        region = make_region()
        threat = make_threat(ThreatDomain.GEO, GeopoliticalProperties(magnitude=1.0))
        ctx, events, _ = make_ctx(region)
        update_threat(threat, 1.0, ctx)
        update_threat(threat, 1.0, ctx)
        assert region.stability == pytest.approx(0.7)
        assert region.economy == pytest.approx(0.8)
        assert threat.is_mitigated
        assert not threat.was_mitigated_by_player
        assert [e[0] for e in events] == ["GEO_EVENT"]

    def test_wmd_with_fallout_spawns_one_rad_threat(self):
        region = make_region()
        threat = make_threat(ThreatDomain.WMD, WMDProperties(yield_kt=25.0, fallout_potential=0.8),
                             lat=3.0, lon=4.0)
        ctx, events, spawned = make_ctx(region)
        update_threat(threat, 1.0, ctx)
        update_threat(threat, 1.0, ctx)
        assert region.stability == pytest.approx(0.75)
        assert region.economy == pytest.approx(0.8)
        assert len(spawned) == 1
        domain, threat_type, severity, lat, lon, props = spawned[0]
        assert domain is ThreatDomain.RAD
        assert severity == 0.8
        assert (lat, lon) == (3.0, 4.0)
        assert props.contamination == 0.8
        assert threat.is_mitigated
        assert events[0][0] == "WMD_DETONATION"
        assert events[0][1]["yield"] == 25.0

    def test_wmd_without_fallout(self):
        threat = make_threat(ThreatDomain.WMD, WMDProperties(fallout_potential=0.5))
        ctx, _, spawned = make_ctx(make_region())
        update_threat(threat, 1.0, ctx)
        assert spawned == []


class TestDecayDomains:
    """Tests for RAD, SPACE and ENV."""

    def test_rad_half_life(self):
        threat = make_threat(ThreatDomain.RAD, RadiologicalProperties(contamination=0.8, half_life=100.0))
        ctx, _, _ = make_ctx()
        update_threat(threat, 1.0, ctx)
        expected = 0.8 - 0.8 * math.log(2) / 100.0
        assert threat.properties.contamination == pytest.approx(expected)
        assert threat.severity == pytest.approx(expected)

    def test_space_deorbit(self):
        threat = make_threat(ThreatDomain.SPACE, SpaceProperties(altitude=100.05, orbital_debris_potential=1.0))
        ctx, events, _ = make_ctx()
        update_threat(threat, 10.0, ctx)
        assert threat.is_mitigated
        assert events[0][0] == "SPACE_DEORBIT"

    def test_env_area_clamped(self):
        threat = make_threat(ThreatDomain.ENV, EnvironmentalProperties(area_of_effect=0.999), severity=1.0)
        ctx, _, _ = make_ctx()
        update_threat(threat, 10.0, ctx)
        assert threat.properties.area_of_effect == 1.0
        assert not threat.is_mitigated
