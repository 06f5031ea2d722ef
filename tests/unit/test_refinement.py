import unittest
from unittest.mock import MagicMock

from modelkombat.core.errors import RateLimitError, ValidationError
from modelkombat.core.refinement import RefinementResult, RefinementRound, run_refinement


class TestRunRefinement(unittest.TestCase):
    def setUp(self):
        self.client = MagicMock()

    def test_rounds_rotate_through_enabled_models(self):
        self.client.create_chat_completion.side_effect = ["critique 1", "answer 1", "critique 2", "answer 2", "critique 3", "answer 3"]

        result = run_refinement(self.client, "Explain recursion", ["m1", "m2"], rounds=3)

        self.assertEqual(result.model_ids, ["m1", "m2", "m1"])
        self.assertEqual([r.round_number for r in result.rounds], [1, 2, 3])
        self.assertEqual(result.final_answer, "answer 3")
        self.assertEqual(result.rounds[1].critique, "critique 2")

        # Round 2 refines the output of round 1
        calls = self.client.create_chat_completion.call_args_list
        self.assertEqual(len(calls), 6)
        self.assertEqual(calls[2].args[0], "m2")
        self.assertIn("answer 1", calls[2].args[1][1]["content"])
        refine_prompt = calls[3].args[1][1]["content"]
        self.assertIn("Explain recursion", refine_prompt)
        self.assertIn("critique 2", refine_prompt)
        self.assertEqual(calls[3].kwargs["max_tokens"], 1000)

    def test_no_enabled_models_uses_auto_router(self):
        self.client.create_chat_completion.return_value = "text"
        result = run_refinement(self.client, "hello", [], rounds=1)
        self.assertEqual(result.model_ids, ["openrouter/auto"])

    def test_empty_completion_placeholder(self):
        self.client.create_chat_completion.return_value = ""
        result = run_refinement(self.client, "hello", ["m1"], rounds=1)
        self.assertEqual(result.rounds[0].critique, "No critique generated")
        self.assertEqual(result.final_answer, "No refined response generated")

    def test_validation(self):
        with self.assertRaises(ValidationError):
            run_refinement(self.client, "   ", ["m1"])
        for rounds in (0, 11):
            with self.assertRaises(ValidationError):
                run_refinement(self.client, "hello", ["m1"], rounds=rounds)
        self.client.create_chat_completion.assert_not_called()

    def test_client_errors_propagate(self):
        self.client.create_chat_completion.side_effect = RateLimitError("Rate limit exceeded")
        with self.assertRaises(RateLimitError):
            run_refinement(self.client, "hello", ["m1"], rounds=2)


class TestRefinementRatings(unittest.TestCase):
    def setUp(self):
        self.result = RefinementResult(question="Explain recursion", rounds=[
            RefinementRound(1, "m1", "c1", "a1"),
            RefinementRound(2, "m2", "c2", "a2"),
            RefinementRound(3, "m1", "c3", "a3"),
        ])

    def test_round_defaults_unrated(self):
        rating = self.result.rounds[0].to_rating()
        self.assertEqual(rating.model_id, "m1")
        self.assertIsNone(rating.rating)
        self.assertFalse(rating.is_winner)

    def test_rate_round_feeds_statistics(self):
        self.result.rate_round(1, rating=4)
        self.result.rate_round(2, rating=2)
        self.result.rate_round(3, rating=5, is_winner=True)

        stats = self.result.rating_stats()

        self.assertEqual(stats["m1"].total_responses, 2)
        self.assertEqual(stats["m1"].average_rating, 4.5)
        self.assertEqual(stats["m1"].win_count, 1)
        self.assertEqual(stats["m2"].average_rating, 2)
        self.assertEqual(stats["m2"].win_count, 0)

    def test_single_winner_per_run(self):
        self.result.rate_round(1, is_winner=True)
        self.result.rate_round(2, rating=5, is_winner=True)
        self.assertEqual([r.is_winner for r in self.result.rounds], [False, True, False])

    def test_rate_round_validation(self):
        with self.assertRaises(ValidationError):
            self.result.rate_round(1, rating=6)
        with self.assertRaises(ValidationError):
            self.result.rate_round(9, rating=3)

    def test_unrated_run_statistics(self):
        stats = self.result.rating_stats()
        self.assertIsNone(stats["m1"].average_rating)
        self.assertEqual(stats["m1"].total_responses, 2)


if __name__ == '__main__':
    unittest.main()
