"""Condition evaluation for step ``if`` expressions."""

from .evaluator import ExpressionConditionEvaluator, ExpressionSyntaxError, tokenize, truthy

__all__ = ["ExpressionConditionEvaluator", "ExpressionSyntaxError", "tokenize", "truthy"]
