"""Tests for ringsim.sim.crawl."""

from __future__ import annotations

from ringsim.sim.crawl import CrawlCoordinator, CrawlResult


class TestCrawl:
    """Test the RPC crawl of the ring."""

    def test_crawl_complete_ring(self, ring_sim):
        result = ring_sim.crawl()

        assert isinstance(result, CrawlResult)
        assert result.visited == 8
        assert result.expected == 8
        assert result.consistency == 8
        assert result.success
        assert result.elapsed_ms > 0

    def test_crawl_with_logging(self, ring_sim, caplog):
        with caplog.at_level("INFO", logger="ringsim.sim.crawl"):
            result = ring_sim.crawl(log=True)
        assert result.success
        assert any("Crawl stats: 8/8" in m for m in caplog.messages)
        assert any("Consistency: 8/8" in m for m in caplog.messages)

    def test_secure_crawl(self, secure_sim):
        result = secure_sim.crawl(secure=True)
        assert result.visited == 8
        assert result.consistency == 8
        origin = secure_sim.registry.record_at(0)
        assert origin.overlord.handshakes_completed >= 7

    def test_crawl_from_hand_built_ring(self, small_ring):
        coordinator = CrawlCoordinator(small_ring[2], count=6)
        result = coordinator.run()

        assert coordinator.done
        assert result.visited == 6
        assert result.consistency == 6

    def test_crawl_stops_when_origin_offline(self, small_ring):
        origin = small_ring[0]
        origin.disconnect()
        coordinator = CrawlCoordinator(origin, count=6)
        result = coordinator.run()

        assert coordinator.done
        assert result.visited == 1
        assert not result.success

    def test_result_to_dict(self):
        result = CrawlResult(visited=3, expected=4, consistency=2, success=False, elapsed_ms=10)
        assert result.to_dict() == {
            "visited": 3,
            "expected": 4,
            "consistency": 2,
            "success": False,
            "elapsed_ms": 10,
        }
