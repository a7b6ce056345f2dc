"""Portfolios: owner CRUD, sharing links and the public view."""

from app.portfolios.service import PortfolioService, slugify

__all__ = ["PortfolioService", "slugify"]
