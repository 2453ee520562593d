from payassist.nlu.destination_resolver import DestinationResolver  # noqa: F401
from payassist.nlu.reply_classifier import Reply, classify_reply  # noqa: F401
