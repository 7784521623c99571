"""
Routes Package
Exports all route blueprints
"""
from quizpart.routes.quiz import quiz_bp
from quizpart.routes.authoring import authoring_bp

__all__ = ['quiz_bp', 'authoring_bp']
