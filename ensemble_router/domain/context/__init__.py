# This module assembles the context a routing decision is made from

# +---------------------+
# |      Memory         |   (Append-only, external store)
# |---------------------|
# | User statements     |
# | Embeddings          |
# | Depth / importance  |
# +---------------------+

# +---------------------+
# |      State          |   (Inferred per utterance)
# |---------------------|
# | Readiness state     |
# | Needs levels        |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |        RouterContext         |   (Assembled fresh every turn)
# |------------------------------|
# | Stage and progress           |
# | Engagement depth             |
# | Readiness state              |
# | Conversation metadata        |
# | Learned preference hints     |
# +------------------------------+
#         |
#         v
#   [routing engine -> experts]
