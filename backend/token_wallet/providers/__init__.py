"""External collaborators: identity, payment and completion providers."""

from .completion import OpenAICompletionProvider
from .oauth import GoogleOAuthProvider
from .payment import StripePaymentProvider

__all__ = ["GoogleOAuthProvider", "OpenAICompletionProvider", "StripePaymentProvider"]
