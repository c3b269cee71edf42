# composebench/metrics/unittests/test_query.py
import math
import unittest

from composebench.metrics.prometheus.query import QueryError, SeriesStore, Vector, parse_query


def key(name, **labels):
    return (name, frozenset(labels.items()))


class TestParseQuery(unittest.TestCase):
    def test_valid_queries(self):
        for q in [
            "1",
            "up",
            'up{job="kafka"}',
            'rate(kafka_server_messages_in_per_sec_per_topic_total{topic="benchi-in"}[2s])',
            'rate(kafka_server_total_bytes_in_per_sec_per_topic{topic="t"}[2s])/1048576',
            "sum by (topic) (rate(bytes_total[5s]))",
            "sum(rate(bytes_total[5s])) by (topic)",
            'avg(mem{name=~"benchi-.*", name!="x"}) * 100 - -1',
            "irate(requests_total[1m]) + increase(requests_total[30s])",
            '{__name__="up"}',
        ]:
            with self.subTest(query=q):
                parse_query(q)

    def test_invalid_queries(self):
        for q in [
            "",
            "rate(up)",
            "rate(up[2s]",
            "up{job=kafka}",
            "up{job~\"x\"}",
            "up[soon]",
            "{}",
            "up @ 5",
            "1 +",
            'up{job=~"("}',
        ]:
            with self.subTest(query=q):
                with self.assertRaises(QueryError):
                    parse_query(q)


class TestSeriesStore(unittest.TestCase):
    def setUp(self):
        self.store = SeriesStore()
        counters = [0.0, 100.0, 300.0, 600.0]
        for i, value in enumerate(counters):
            self.store.add(
                float(i),
                {
                    key("messages_total", topic="a"): value,
                    key("messages_total", topic="b"): value * 2,
                    key("bytes", topic="a"): 1048576.0 * (i + 1),
                    key("up", job="kafka"): 1.0,
                },
            )

    def value(self, query, at=3.0):
        return self.store.evaluate_value(parse_query(query), at)

    def test_scalar(self):
        self.assertEqual(self.value("2 * (3 + 4) / 7"), 2.0)

    def test_instant_selector_uses_latest_scrape(self):
        self.assertEqual(self.value('messages_total{topic="a"}'), 600.0)
        self.assertEqual(self.value('messages_total{topic="a"}', at=1.5), 100.0)

    def test_multiple_series_are_summed(self):
        self.assertEqual(self.value("messages_total"), 1800.0)

    def test_no_series_records_nothing(self):
        self.assertIsNone(self.value('messages_total{topic="missing"}'))
        self.assertIsNone(self.value("up", at=-1.0))

    def test_matchers(self):
        self.assertEqual(self.value('messages_total{topic!="a"}'), 1200.0)
        self.assertEqual(self.value('messages_total{topic=~"a|b"}'), 1800.0)
        self.assertEqual(self.value('messages_total{topic!~"a"}'), 1200.0)
        self.assertEqual(self.value('{__name__="up"}'), 1.0)

    def test_rate(self):
        # window (1, 3] holds the samples at 2 and 3
        self.assertEqual(self.value('rate(messages_total{topic="a"}[2s])'), 300.0)
        self.assertEqual(self.value('rate(messages_total{topic="a"}[10s])'), 200.0)

    def test_irate_and_increase(self):
        self.assertEqual(self.value('irate(messages_total{topic="a"}[10s])'), 300.0)
        self.assertEqual(self.value('increase(messages_total{topic="a"}[10s])'), 600.0)

    def test_rate_needs_two_samples(self):
        self.assertIsNone(self.value('rate(messages_total{topic="a"}[1s])'))

    def test_counter_reset(self):
        store = SeriesStore()
        for ts, value in [(0.0, 10.0), (1.0, 20.0), (2.0, 5.0)]:
            store.add(ts, {key("c"): value})
        self.assertEqual(store.evaluate_value(parse_query("increase(c[10s])"), 2.0), 15.0)

    def test_rate_divided(self):
        self.assertEqual(self.value('rate(bytes{topic="a"}[2s])/1048576'), 1.0)

    def test_aggregations(self):
        result = self.store.evaluate(parse_query("sum by (topic) (messages_total)"), 3.0)
        self.assertIsInstance(result, Vector)
        self.assertEqual(result[frozenset({("topic", "a")})], 600.0)
        self.assertEqual(result[frozenset({("topic", "b")})], 1200.0)

        self.assertEqual(self.value("avg(messages_total)"), 900.0)
        self.assertEqual(self.value("min(messages_total)"), 600.0)
        self.assertEqual(self.value("max(messages_total)"), 1200.0)

    def test_vector_vector_arithmetic_matches_labels(self):
        self.assertEqual(self.value('messages_total / messages_total{topic="a"}'), 1.0)

    def test_division_by_zero(self):
        self.assertEqual(self.value("1 / 0"), math.inf)
        self.assertTrue(math.isnan(self.value("0 / 0")))

    def test_unary_minus(self):
        self.assertEqual(self.value('-messages_total{topic="a"}'), -600.0)

    def test_range_vector_result_rejected(self):
        with self.assertRaises(QueryError):
            self.value("messages_total[2s]")

    def test_retention(self):
        store = SeriesStore(retention_seconds=10)
        for ts in range(30):
            store.add(float(ts), {key("up"): 1.0})
        self.assertEqual(len(store), 11)


if __name__ == "__main__":
    unittest.main()
